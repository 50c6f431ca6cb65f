# services/web_app/app/pages.py
"""Server-rendered authentication pages (sign-in, sign-up, passcode entry)."""
from html import escape
from typing import Optional

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title} | StoreIt</title>
  <style>
    body {{ font-family: Poppins, sans-serif; background: #f2f4f8; display: flex; justify-content: center; padding-top: 10vh; }}
    .auth-form {{ background: #fff; border-radius: 20px; padding: 32px; width: 360px; box-shadow: 0 10px 30px rgba(0,0,0,.06); }}
    .form-title {{ margin-top: 0; }}
    label {{ display: block; font-size: 14px; margin: 16px 0 4px; }}
    input {{ width: 100%; padding: 10px; border: 1px solid #ddd; border-radius: 10px; box-sizing: border-box; }}
    button {{ margin-top: 20px; width: 100%; padding: 12px; border: 0; border-radius: 40px; background: #fa7275; color: #fff; font-size: 15px; }}
    .error-message {{ background: #fde8e8; color: #b42318; padding: 10px; border-radius: 10px; }}
    .info-message {{ background: #e8f4fd; color: #175cd3; padding: 10px; border-radius: 10px; }}
    .switch {{ margin-top: 16px; text-align: center; font-size: 14px; }}
    .link-button {{ background: none; color: #fa7275; padding: 0; margin: 0; width: auto; }}
  </style>
</head>
<body>
{body}
</body>
</html>
"""


def _message(error: Optional[str], info: Optional[str] = None) -> str:
    if error:
        return f'<p class="error-message">{escape(error)}</p>'
    if info:
        return f'<p class="info-message">{escape(info)}</p>'
    return ""


def render_auth_page(form_type: str, error: Optional[str] = None, full_name: str = "", email: str = "") -> str:
    """Sign-in or sign-up form. The full name field only appears on sign-up."""
    is_sign_in = form_type == "sign-in"
    title = "Sign In" if is_sign_in else "Sign Up"
    full_name_field = "" if is_sign_in else (
        '<label for="full_name">Full Name</label>'
        f'<input id="full_name" name="full_name" placeholder="Enter your full name" value="{escape(full_name)}">'
    )
    switch_text, switch_link, switch_label = (
        ("Don't have an account?", "/sign-up", "Sign Up") if is_sign_in
        else ("Already have an account?", "/sign-in", "Sign In")
    )
    body = f"""<form class="auth-form" method="post" action="/{form_type}">
  <h1 class="form-title">{title}</h1>
  {_message(error)}
  {full_name_field}
  <label for="email">Email</label>
  <input id="email" name="email" placeholder="Enter your email" value="{escape(email)}">
  <button type="submit">{title}</button>
  <p class="switch">{escape(switch_text)} <a href="{switch_link}">{switch_label}</a></p>
</form>"""
    return PAGE_TEMPLATE.format(title=title, body=body)


def render_otp_page(email: str, account_id: str, error: Optional[str] = None, info: Optional[str] = None) -> str:
    """Passcode entry step shown after a code has been emailed."""
    hidden = (
        f'<input type="hidden" name="account_id" value="{escape(account_id)}">'
        f'<input type="hidden" name="email" value="{escape(email)}">'
    )
    body = f"""<div class="auth-form">
  <form method="post" action="/verify">
    <h1 class="form-title">Enter Your OTP</h1>
    <p>We've sent a code to <strong>{escape(email)}</strong></p>
    {_message(error, info)}
    {hidden}
    <label for="passcode">Passcode</label>
    <input id="passcode" name="passcode" inputmode="numeric" autocomplete="one-time-code" maxlength="6">
    <button type="submit">Submit</button>
  </form>
  <form method="post" action="/otp/resend" class="switch">
    {hidden}
    Didn't get a code? <button type="submit" class="link-button">Click to resend</button>
  </form>
</div>"""
    return PAGE_TEMPLATE.format(title="Enter Your OTP", body=body)
