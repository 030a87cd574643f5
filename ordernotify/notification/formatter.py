"""Telegram message rendering for order notifications."""

from decimal import Decimal
from html import escape

from ordernotify.models.notification import OrderNotification

STATUS_EMOJI = {
    "pending": "⏳",
    "on-hold": "⏸",
    "processing": "🔄",
    "paid": "💳",
    "shipped": "🚚",
    "completed": "✅",
    "delivered": "✅",
    "cancelled": "❌",
    "refunded": "↩️",
    "failed": "⚠️",
}

MAX_ITEMS = 10


def format_amount(amount: Decimal, currency: str) -> str:
    """Format a money amount, e.g. ``EUR 12.50``."""
    return f"{currency.upper()} {amount.quantize(Decimal('0.01'))}"


def _items_block(order: OrderNotification) -> list[str]:
    lines = ["", "<b>Items:</b>"]
    for item in order.items[:MAX_ITEMS]:
        lines.append(
            f"• {escape(item.product_name)} × {item.quantity} "
            f"({format_amount(item.price, order.currency)})"
        )
    hidden = len(order.items) - MAX_ITEMS
    if hidden > 0:
        lines.append(f"… and {hidden} more")
    return lines


def render_order_created(order: OrderNotification) -> str:
    lines = [
        f"🛒 <b>New order</b> <code>#{escape(order.order_id)}</code>",
        "",
        f"<b>Customer:</b> {escape(order.customer_name) or '-'}",
    ]
    if order.customer_email:
        lines.append(f"📧 <b>Email:</b> {escape(order.customer_email)}")
    lines.extend(
        [
            f"💰 <b>Total:</b> {format_amount(order.total_amount, order.currency)}",
            f"📦 <b>Status:</b> {escape(order.status)}",
            f"🏪 <b>Source:</b> {escape(order.source)}",
            f"⏰ <b>Date:</b> {order.created_at.strftime('%Y-%m-%d %H:%M')}",
        ]
    )
    if order.items:
        lines.extend(_items_block(order))
    return "\n".join(lines)


def render_status_update(order: OrderNotification) -> str:
    emoji = STATUS_EMOJI.get(order.status.lower(), "📦")
    if order.previous_status:
        transition = f"{escape(order.previous_status)} → <b>{escape(order.status)}</b>"
    else:
        transition = f"<b>{escape(order.status)}</b>"

    return "\n".join(
        [
            f"{emoji} <b>Order update</b> <code>#{escape(order.order_id)}</code>",
            "",
            f"<b>Customer:</b> {escape(order.customer_name) or '-'}",
            f"<b>Status:</b> {transition}",
            f"💰 <b>Total:</b> {format_amount(order.total_amount, order.currency)}",
        ]
    )


def render_order_message(order: OrderNotification) -> str:
    """Render the Telegram HTML message for an order event."""
    if order.is_update:
        return render_status_update(order)
    return render_order_created(order)
