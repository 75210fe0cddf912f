"""Order domain exports."""
from .entity import Order, OrderItem, OrderStatus, PaymentStatus
from .repository import OrderRepository

__all__ = ["Order", "OrderItem", "OrderStatus", "PaymentStatus", "OrderRepository"]
