from __future__ import annotations

from html import escape


def featured_listing_confirmation_email(practice_name: str, dashboard_url: str) -> dict[str, str]:
    listing_label = escape(practice_name.strip() or "your listing")
    dashboard_link = escape(dashboard_url.strip(), quote=True)

    subject = "Your featured listing is now live"
    html = (
        "<html><body>"
        "<p>Thank you for subscribing to a featured listing.</p>"
        f"<p><strong>{listing_label}</strong> is now featured in the directory and will appear "
        "at the top of search results and on the featured listings page.</p>"
        "<p>Your subscription renews monthly. You can update your payment details or cancel at "
        f'any time from your <a href="{dashboard_link}">dashboard</a>.</p>'
        "</body></html>"
    )
    return {"subject": subject, "html": html}
