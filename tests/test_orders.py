"""Tests for the order ledger"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from dispatch.exceptions import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from dispatch.models.agent import AgentStatus, VehicleType
from dispatch.models.order import NotificationType, OrderStatus, PaymentStatus
from dispatch.schemas.order import DeliveryTimeWindow, OrderItemCreate
from dispatch.services.orders import OrderLedger

from tests.conftest import DELIVERY_POINT, delivery_address, km_north, order_items


class TestCreate:
    """Opening orders"""

    async def test_total_from_menu_prices(self, pending_order):
        assert pending_order.total_cents == 2500
        assert pending_order.status == OrderStatus.PENDING
        assert pending_order.payment_status == PaymentStatus.PENDING
        assert pending_order.delivery_agent_id is None
        assert pending_order.tracking_events == []
        assert [(i["name"], i["quantity"], i["unit_price_cents"]) for i in pending_order.items_json] == [
            ("Pizza", 2, 1000),
            ("Salad", 1, 500),
        ]

    async def test_requires_items(self, ledger, customer, test_restaurant):
        with pytest.raises(InvalidInputError):
            await ledger.create(customer.id, test_restaurant.id, [], delivery_address())

    async def test_rejects_non_positive_quantity(self, ledger, customer, test_restaurant, test_menu_items):
        with pytest.raises(InvalidInputError) as exc_info:
            await ledger.create(
                customer.id, test_restaurant.id, order_items(test_menu_items, pizzas=0), delivery_address()
            )
        assert exc_info.value.field == "quantity"

    async def test_rejects_bad_coordinates(self, ledger, customer, test_restaurant, test_menu_items):
        with pytest.raises(InvalidInputError):
            await ledger.create(
                customer.id, test_restaurant.id, order_items(test_menu_items), delivery_address((0.0, 123.0))
            )

    async def test_unknown_restaurant(self, ledger, customer, test_menu_items):
        with pytest.raises(NotFoundError):
            await ledger.create(customer.id, uuid4(), order_items(test_menu_items), delivery_address())

    async def test_unknown_menu_item(self, ledger, customer, test_restaurant, test_menu_items):
        items = [OrderItemCreate(menu_item_id=uuid4(), quantity=1)]
        with pytest.raises(NotFoundError):
            await ledger.create(customer.id, test_restaurant.id, items, delivery_address())

    async def test_unavailable_menu_item(self, ledger, customer, test_restaurant, test_menu_items):
        items = [OrderItemCreate(menu_item_id=test_menu_items[2].id, quantity=1)]
        with pytest.raises(InvalidInputError):
            await ledger.create(customer.id, test_restaurant.id, items, delivery_address())

    async def test_delivery_time_window(self, ledger, customer, test_restaurant, test_menu_items):
        start = datetime(2026, 10, 20, 18, 0, tzinfo=timezone(timedelta(hours=2)))
        window = DeliveryTimeWindow(start=start, end=start + timedelta(hours=1), is_flexible=True)

        order = await ledger.create(
            customer.id,
            test_restaurant.id,
            order_items(test_menu_items),
            delivery_address(),
            delivery_time_window=window,
        )

        assert order.preferred_delivery_start == datetime(2026, 10, 20, 16, 0)
        assert order.preferred_delivery_end == datetime(2026, 10, 20, 17, 0)
        assert order.delivery_time_flexible is True

    async def test_no_delivery_time_window(self, pending_order):
        assert pending_order.preferred_delivery_start is None
        assert pending_order.preferred_delivery_end is None
        assert pending_order.delivery_time_flexible is False

    async def test_delivery_window_must_be_ordered(self, ledger, customer, test_restaurant, test_menu_items):
        start = datetime(2026, 10, 20, 18, 0)
        window = DeliveryTimeWindow(start=start, end=start)

        with pytest.raises(InvalidInputError) as exc_info:
            await ledger.create(
                customer.id,
                test_restaurant.id,
                order_items(test_menu_items),
                delivery_address(),
                delivery_time_window=window,
            )
        assert exc_info.value.field == "delivery_time_window"

    async def test_unknown_order(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.get(uuid4())


class TestCancel:
    """Cancelling orders"""

    async def test_cancel_pending(self, test_db, ledger, pending_order, notifier):
        order = await ledger.cancel(pending_order.id)
        await test_db.commit()

        assert order.status == OrderStatus.CANCELLED
        assert len(order.tracking_events) == 1
        assert order.tracking_events[0].status == OrderStatus.CANCELLED

        assert notifier.events == []
        await ledger.publish_events()
        assert notifier.of_type("order_status")[0][0] == f"order_{order.id}"

    async def test_cancel_is_not_repeatable(self, ledger, pending_order):
        await ledger.cancel(pending_order.id)

        with pytest.raises(InvalidTransitionError):
            await ledger.cancel(pending_order.id)

    async def test_cannot_cancel_confirmed(self, ledger, assigned_order):
        order, _ = assigned_order

        with pytest.raises(InvalidTransitionError):
            await ledger.cancel(order.id)

    async def test_cancelled_is_terminal(self, ledger, pending_order):
        await ledger.cancel(pending_order.id)

        with pytest.raises(InvalidTransitionError):
            await ledger.advance_status(pending_order.id, OrderStatus.CONFIRMED)


class TestAssignAgent:
    """Picking a courier for a pending order"""

    async def test_no_agent_available(self, ledger, pending_order):
        assert await ledger.assign_agent(pending_order.id) is None

        order = await ledger.get(pending_order.id)
        assert order.status == OrderStatus.PENDING
        assert order.delivery_agent_id is None
        assert order.tracking_events == []

    async def test_agent_out_of_range(self, ledger, pending_order, make_agent):
        await make_agent(point=km_north(8.0))

        assert await ledger.assign_agent(pending_order.id) is None

    async def test_assigns_best_agent(self, ledger, pending_order, make_agent):
        await make_agent(point=km_north(0.5), rating=4.0)
        best = await make_agent(point=km_north(3.0), rating=4.9)

        agent = await ledger.assign_agent(pending_order.id)

        assert agent.id == best.id
        assert agent.status == AgentStatus.BUSY
        assert agent.current_order_id == pending_order.id

        order = await ledger.get(pending_order.id)
        assert order.status == OrderStatus.CONFIRMED
        assert order.delivery_agent_id == best.id
        assert order.assigned_at is not None
        assert len(order.tracking_events) == 1
        assert order.tracking_events[0].description == "Delivery agent assigned"
        assert order.notifications[-1].message == f"Delivery agent {best.user.full_name} assigned to your order"

    async def test_already_assigned(self, ledger, assigned_order, make_agent):
        order, _ = assigned_order
        await make_agent()

        with pytest.raises(InvalidTransitionError):
            await ledger.assign_agent(order.id)

    async def test_skips_agent_lost_to_another_order(self, test_db, ledger, pending_order, make_agent, monkeypatch):
        taken = await make_agent(rating=5.0)
        free = await make_agent(rating=4.0)
        await ledger.agents.assign(taken.id, uuid4())
        await test_db.commit()

        async def stale_search(origin, max_distance_km, exclude=None):
            return [taken, free]

        monkeypatch.setattr(ledger.agents, "find_nearest_available", stale_search)

        agent = await ledger.assign_agent(pending_order.id)

        assert agent.id == free.id


class TestAdvanceStatus:
    """Lifecycle transitions"""

    async def test_full_lifecycle(self, test_db, ledger, assigned_order):
        order, agent = assigned_order
        history = len(order.tracking_events)

        for status in (
            OrderStatus.PREPARING,
            OrderStatus.READY,
            OrderStatus.PICKED_UP,
            OrderStatus.IN_TRANSIT,
        ):
            order = await ledger.advance_status(order.id, status)
            history += 1
            assert order.status == status
            assert len(order.tracking_events) == history
            assert order.tracking_events[-1].status == status
            assert order.actual_delivery_time is None

        order = await ledger.advance_status(order.id, OrderStatus.DELIVERED)
        await test_db.commit()

        assert order.actual_delivery_time is not None
        assert len(order.tracking_events) == history + 1

        await test_db.refresh(agent)
        assert agent.status == AgentStatus.AVAILABLE
        assert agent.current_order_id is None
        assert agent.total_deliveries == 1

    async def test_skipping_forward_is_allowed(self, ledger, assigned_order):
        order, _ = assigned_order

        order = await ledger.advance_status(order.id, OrderStatus.PICKED_UP)

        assert order.status == OrderStatus.PICKED_UP

    async def test_cannot_move_backwards(self, ledger, assigned_order):
        order, _ = assigned_order
        await ledger.advance_status(order.id, OrderStatus.READY)

        with pytest.raises(InvalidTransitionError):
            await ledger.advance_status(order.id, OrderStatus.PREPARING)
        with pytest.raises(InvalidTransitionError):
            await ledger.advance_status(order.id, OrderStatus.READY)

    async def test_delivered_is_terminal(self, ledger, assigned_order):
        order, _ = assigned_order
        order = await ledger.advance_status(order.id, OrderStatus.DELIVERED)
        delivered_at = order.actual_delivery_time

        with pytest.raises(InvalidTransitionError):
            await ledger.advance_status(order.id, OrderStatus.DELIVERED)

        assert (await ledger.get(order.id)).actual_delivery_time == delivered_at

    async def test_requires_agent(self, ledger, pending_order):
        with pytest.raises(InvalidTransitionError):
            await ledger.advance_status(pending_order.id, OrderStatus.PREPARING)

    async def test_cancel_is_not_a_status_advance(self, ledger, assigned_order):
        order, _ = assigned_order

        with pytest.raises(InvalidTransitionError):
            await ledger.advance_status(order.id, OrderStatus.CANCELLED)

    async def test_unknown_status(self, ledger, assigned_order):
        order, _ = assigned_order

        with pytest.raises(InvalidInputError):
            await ledger.advance_status(order.id, "teleported")

    async def test_records_location_and_notifies(self, test_db, ledger, assigned_order, notifier):
        order, _ = assigned_order
        notifier.events.clear()

        order = await ledger.advance_status(
            order.id, OrderStatus.PICKED_UP, point=(-74.0, 40.72), description="Picked up at counter"
        )
        await test_db.commit()
        await ledger.publish_events()

        entry = order.tracking_events[-1]
        assert (entry.longitude, entry.latitude) == (-74.0, 40.72)
        assert entry.description == "Picked up at counter"
        assert order.notifications[-1].type == NotificationType.STATUS_UPDATE
        assert [e[1] for e in notifier.events] == ["notification", "order_status"]


class TestRoute:
    """Route estimates"""

    async def test_no_agent_means_no_route(self, ledger, pending_order):
        assert await ledger.optimize_route(pending_order.id) is None
        assert (await ledger.get(pending_order.id)).route_json is None

    async def test_route_from_agent_to_customer(self, ledger, assigned_order):
        order, agent = assigned_order

        route = await ledger.optimize_route(order.id)

        assert route["distance_km"] == pytest.approx(1.0, rel=1e-3)
        # bicycle at 15 km/h
        assert route["estimated_minutes"] == pytest.approx(4.0, rel=1e-3)
        assert [w["name"] for w in route["waypoints"]] == ["Current Location", "Delivery Address"]
        assert (route["waypoints"][0]["longitude"], route["waypoints"][0]["latitude"]) == agent.location

        order = await ledger.get(order.id)
        assert order.estimated_delivery_time is not None

    async def test_route_follows_latest_location(self, ledger, assigned_order):
        order, agent = assigned_order
        first = await ledger.optimize_route(order.id)

        await ledger.agents.update_location(agent.id, km_north(3.0))
        second = await ledger.optimize_route(order.id)

        assert second["distance_km"] == pytest.approx(3.0, rel=1e-3)
        assert second["distance_km"] > first["distance_km"]


class TestAgentLocation:
    """Courier position updates on an order"""

    async def test_update_agent_location(self, ledger, assigned_order):
        order, agent = assigned_order
        history = len(order.tracking_events)
        point = km_north(0.5)

        await ledger.agents.update_location(agent.id, point)
        order = await ledger.update_agent_location(order.id, point)

        assert len(order.tracking_events) == history + 1
        entry = order.tracking_events[-1]
        assert (entry.longitude, entry.latitude) == point
        assert entry.status == OrderStatus.CONFIRMED

        notification = order.notifications[-1]
        assert notification.type == NotificationType.LOCATION_UPDATE
        assert notification.message == f"Your order is on the way! Current location: {point[1]}, {point[0]}"
        assert order.route_json["distance_km"] == pytest.approx(0.5, rel=1e-3)

    async def test_requires_agent(self, ledger, pending_order):
        with pytest.raises(InvalidTransitionError):
            await ledger.update_agent_location(pending_order.id, km_north(1.0))


class TestEnsureAssigned:
    """Lazy assignment on read"""

    async def test_assigns_and_routes(self, ledger, pending_order, make_agent):
        agent = await make_agent(point=km_north(2.0), vehicle_type=VehicleType.MOTORCYCLE)

        assigned = await ledger.ensure_assigned(pending_order.id)

        assert assigned.id == agent.id
        order = await ledger.get(pending_order.id)
        assert order.status == OrderStatus.CONFIRMED
        assert order.route_json["estimated_minutes"] == pytest.approx(4.0, rel=1e-3)

    async def test_keeps_existing_agent(self, ledger, assigned_order, make_agent):
        order, agent = assigned_order
        await make_agent(rating=5.0)

        assert (await ledger.ensure_assigned(order.id)).id == agent.id

    async def test_nobody_available(self, ledger, pending_order):
        assert await ledger.ensure_assigned(pending_order.id) is None

    async def test_assign_if_waiting_reports_only_new_assignments(self, ledger, pending_order, make_agent):
        agent = await make_agent()

        assert (await ledger.assign_if_waiting(pending_order.id)).id == agent.id
        assert await ledger.assign_if_waiting(pending_order.id) is None
        assert (await ledger.ensure_assigned(pending_order.id)).id == agent.id


class TestReassign:
    """Handing an order to another courier"""

    async def test_reassign(self, test_db, ledger, assigned_order, make_agent):
        order, previous = assigned_order
        replacement = await make_agent(point=km_north(2.0))

        agent = await ledger.reassign_agent(order.id)
        await test_db.commit()

        assert agent.id == replacement.id
        await test_db.refresh(previous)
        assert previous.status == AgentStatus.AVAILABLE
        assert previous.current_order_id is None

        order = await ledger.get(order.id)
        assert order.delivery_agent_id == replacement.id
        assert order.tracking_events[-1].description == "Delivery agent reassigned"

    async def test_keeps_agent_when_nobody_else(self, ledger, assigned_order):
        order, previous = assigned_order

        assert await ledger.reassign_agent(order.id) is None
        assert (await ledger.get(order.id)).delivery_agent_id == previous.id

    async def test_not_after_pickup(self, ledger, assigned_order, make_agent):
        order, _ = assigned_order
        await ledger.advance_status(order.id, OrderStatus.PICKED_UP)
        await make_agent()

        with pytest.raises(InvalidTransitionError):
            await ledger.reassign_agent(order.id)


class TestNotifications:
    """Read flags"""

    async def test_unknown_ids_are_ignored(self, ledger, assigned_order):
        order, _ = assigned_order
        before = [(n.id, n.read) for n in order.notifications]

        assert await ledger.mark_notifications_read(order.id, [uuid4()]) == 0

        order = await ledger.get(order.id)
        assert [(n.id, n.read) for n in order.notifications] == before

    async def test_mark_read(self, ledger, assigned_order):
        order, _ = assigned_order
        target = order.notifications[0]

        assert await ledger.mark_notifications_read(order.id, [target.id, uuid4()]) == 1
        assert await ledger.mark_notifications_read(order.id, [str(target.id)]) == 0

        order = await ledger.get(order.id)
        assert order.notifications[0].read is True

    async def test_push_notification(self, ledger, pending_order):
        notification = await ledger.push_notification(
            pending_order.id, NotificationType.DELAY, "Kitchen is running late"
        )

        assert notification.position == 0
        assert notification.read is False


class TestRatingAndPayment:
    """Feedback and payment bookkeeping"""

    async def test_rate_delivered_order(self, ledger, assigned_order):
        order, _ = assigned_order
        await ledger.advance_status(order.id, OrderStatus.DELIVERED)

        order = await ledger.rate(order.id, 5, "Still hot")

        assert order.rating == 5
        assert order.feedback == "Still hot"
        with pytest.raises(InvalidTransitionError):
            await ledger.rate(order.id, 4)

    async def test_rating_feeds_the_agent_score(self, test_db, ledger, assigned_order, make_agent):
        order, agent = assigned_order
        rival = await make_agent(point=km_north(2.0), rating=3.0)
        await ledger.advance_status(order.id, OrderStatus.DELIVERED)
        await test_db.commit()

        found = await ledger.agents.find_nearest_available(DELIVERY_POINT)
        assert [a.id for a in found] == [agent.id, rival.id]

        await ledger.rate(order.id, 1)

        rated = await ledger.agents.get(agent.id)
        assert rated.rating == pytest.approx(2.75)
        found = await ledger.agents.find_nearest_available(DELIVERY_POINT)
        assert [a.id for a in found] == [rival.id, agent.id]

    async def test_rate_requires_delivery(self, ledger, assigned_order):
        order, _ = assigned_order

        with pytest.raises(InvalidTransitionError):
            await ledger.rate(order.id, 5)

    async def test_rating_range(self, ledger, pending_order):
        with pytest.raises(InvalidInputError):
            await ledger.rate(pending_order.id, 6)

    async def test_payment_transitions(self, ledger, pending_order):
        order = await ledger.set_payment_status(pending_order.id, PaymentStatus.PAID)
        assert order.payment_status == PaymentStatus.PAID

        with pytest.raises(InvalidTransitionError):
            await ledger.set_payment_status(pending_order.id, PaymentStatus.PENDING)

        order = await ledger.set_payment_status(pending_order.id, PaymentStatus.REFUNDED)
        assert order.payment_status == PaymentStatus.REFUNDED


class TestListForUser:
    """Order visibility by role"""

    async def test_customer_sees_own_orders(self, test_db, ledger, pending_order, customer, other_customer):
        orders, total = await ledger.list_for_user(customer)
        assert total == 1
        assert orders[0].id == pending_order.id

        orders, total = await ledger.list_for_user(other_customer)
        assert (orders, total) == ([], 0)

    async def test_restaurant_and_admin(self, ledger, pending_order, restaurant_owner, admin_user):
        assert (await ledger.list_for_user(restaurant_owner))[1] == 1
        assert (await ledger.list_for_user(admin_user))[1] == 1

    async def test_filter_by_status(self, ledger, pending_order, admin_user):
        assert (await ledger.list_for_user(admin_user, status=OrderStatus.DELIVERED))[1] == 0
