"""Order lifecycle and delivery tracking services"""
