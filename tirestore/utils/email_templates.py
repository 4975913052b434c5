from html import escape

from tirestore.core.config import settings

BASE_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #222; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background: #1f2933; color: white; padding: 20px; text-align: center; }
    .button { display: inline-block; padding: 12px 24px; background: #e4572e; color: white;
              text-decoration: none; border-radius: 4px; }
    table { width: 100%; border-collapse: collapse; margin: 20px 0; }
    th, td { padding: 10px; text-align: left; border-bottom: 1px solid #ddd; }
    .total { font-size: 18px; font-weight: bold; }
    .footer { font-size: 12px; color: #777; margin-top: 30px; }
"""


def _layout(title: str, body: str, footer: str = "") -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head><style>{BASE_STYLE}</style></head>
    <body>
        <div class="container">
            <div class="header">
                <h1>{escape(settings.EMAILS_FROM_NAME)}</h1>
                <p>{title}</p>
            </div>
            {body}
            <p>Best regards,<br>{escape(settings.EMAILS_FROM_NAME)} Team</p>
            <div class="footer">{footer}</div>
        </div>
    </body>
    </html>
    """


def _money(value) -> str:
    return f"€{float(value or 0):,.2f}"


def _address_html(address) -> str:
    if not address:
        return "<p>-</p>"
    parts = [
        address.get("name") or address.get("fullName"),
        address.get("street") or address.get("line1"),
        " ".join(p for p in [address.get("zipCode") or address.get("postal_code"), address.get("city")] if p),
        address.get("country"),
    ]
    return "<p>" + "<br>".join(escape(str(p)) for p in parts if p) + "</p>"


def verification_template(name: str, email: str, token: str) -> str:
    link = f"{settings.FRONTEND_URL}/verify-email?email={email}&token={token}"
    body = f"""
        <p>Hello {escape(name)},</p>
        <p>Thanks for creating an account. Please confirm your email address to start ordering.</p>
        <p><a class="button" href="{link}">Verify email</a></p>
        <p>If the button does not work, copy this link into your browser:<br>{link}</p>
    """
    return _layout("Verify your email", body)


def password_reset_template(name: str, email: str, reset_token: str) -> str:
    link = f"{settings.FRONTEND_URL}/reset-password?email={email}&token={reset_token}"
    body = f"""
        <p>Hello {escape(name)},</p>
        <p>We received a request to reset your password.</p>
        <p><a class="button" href="{link}">Reset password</a></p>
        <p>If you did not request this, you can ignore this email.</p>
    """
    return _layout("Password reset", body)


def order_confirmation_template(order) -> str:
    """HTML email template for order confirmation"""
    items_html = ""
    for item in order.items:
        items_html += f"""
        <tr>
            <td>{escape(item.product_name)} ({escape(item.product_size)})</td>
            <td>{item.quantity}</td>
            <td>{_money(item.unit_price)}</td>
            <td>{_money(item.total_price)}</td>
        </tr>
        """

    body = f"""
        <p>Dear {escape(order.user_name)},</p>
        <p>Thank you for your order! Your order <strong>#{order.order_number}</strong> has been confirmed.</p>
        <h3>Order Details:</h3>
        <table>
            <thead><tr><th>Item</th><th>Qty</th><th>Price</th><th>Total</th></tr></thead>
            <tbody>{items_html}</tbody>
        </table>
        <table>
            <tr><td>Subtotal:</td><td>{_money(order.subtotal)}</td></tr>
            <tr><td>Tax:</td><td>{_money(order.tax)}</td></tr>
            <tr><td>Shipping:</td><td>{_money(order.shipping)}</td></tr>
            <tr class="total"><td>Total:</td><td>{_money(order.total)}</td></tr>
        </table>
        <h3>Shipping Address:</h3>
        {_address_html(order.shipping_address)}
        <p>Track your order: <a href="{settings.FRONTEND_URL}/account/orders">Click here</a></p>
    """
    return _layout("Order Confirmation", body)


def order_shipped_template(order) -> str:
    """HTML email template for order shipped update."""
    tracking = escape(order.tracking_number or "-")
    body = f"""
        <h2>Good news, {escape(order.user_name)}!</h2>
        <p>Your order <strong>#{order.order_number}</strong> has been shipped.</p>
        <p>Tracking Number: <strong>{tracking}</strong></p>
        <p><a href="{settings.FRONTEND_URL}/account/orders">Track Order</a></p>
    """
    return _layout("Order Shipped", body)


def order_completed_template(order) -> str:
    body = f"""
        <p>Hello {escape(order.user_name)},</p>
        <p>Your order <strong>#{order.order_number}</strong> is complete. We hope you enjoy your new tires.</p>
        <p>Tell other drivers what you think by leaving a review on the product page.</p>
    """
    return _layout("Order Completed", body)


def contact_confirmation_template(contact) -> str:
    body = f"""
        <p>Hello {escape(contact.name)},</p>
        <p>We received your message and will get back to you within one business day.</p>
        <p><strong>Subject:</strong> {escape(contact.subject)}</p>
        <blockquote>{escape(contact.message)}</blockquote>
    """
    return _layout("We received your message", body)


def contact_admin_notification_template(contact) -> str:
    body = f"""
        <p>A new <strong>{escape(contact.inquiry_type)}</strong> inquiry was submitted.</p>
        <table>
            <tr><td>Name</td><td>{escape(contact.name)}</td></tr>
            <tr><td>Email</td><td>{escape(contact.email)}</td></tr>
            <tr><td>Phone</td><td>{escape(contact.phone or "-")}</td></tr>
            <tr><td>Subject</td><td>{escape(contact.subject)}</td></tr>
        </table>
        <blockquote>{escape(contact.message)}</blockquote>
    """
    return _layout("New contact message", body)


def contact_reply_template(contact, reply_message: str) -> str:
    body = f"""
        <p>Hello {escape(contact.name)},</p>
        <p>{escape(reply_message)}</p>
        <hr>
        <p><em>Your original message:</em></p>
        <blockquote>{escape(contact.message)}</blockquote>
    """
    return _layout(f"Re: {escape(contact.subject)}", body)


def newsletter_welcome_template(name: str | None) -> str:
    body = f"""
        <p>Hello {escape(name or "there")},</p>
        <p>Thanks for subscribing. You will be the first to hear about new tires, seasonal offers and fitting tips.</p>
        <p><a class="button" href="{settings.FRONTEND_URL}/products">Browse tires</a></p>
    """
    return _layout("Welcome to our newsletter", body)


def unsubscribe_link(email: str) -> str:
    return f"{settings.FRONTEND_URL}/unsubscribe?email={email}"


def campaign_template(campaign, email: str, products=None) -> str:
    """Campaign body; product catalog campaigns append a product grid."""
    products_html = ""
    for product in products or []:
        image = product.primary_image
        image_html = f'<img src="{image}" alt="{escape(product.name)}" width="160">' if image else ""
        products_html += f"""
        <tr>
            <td>{image_html}</td>
            <td>
                <strong>{escape(product.brand)} {escape(product.name)}</strong><br>
                {escape(product.size)}<br>
                {_money(product.price)}<br>
                <a href="{settings.FRONTEND_URL}/products/{product.id}">View product</a>
            </td>
        </tr>
        """
    if products_html:
        products_html = f"<table>{products_html}</table>"

    footer = f'<a href="{unsubscribe_link(email)}">Unsubscribe</a>'
    return _layout(escape(campaign.title), f"{campaign.content}{products_html}", footer)


def test_email_template() -> str:
    return _layout("SMTP test", "<p>Your SMTP settings are working.</p>")


def bulk_email_template(subject: str, content: str, email: str) -> str:
    footer = f'<a href="{unsubscribe_link(email)}">Unsubscribe</a>'
    return _layout(escape(subject), content, footer)
