"""Interactive Telegram login for ghostgate.

Authorization happens once per session file; later runs reuse it silently.
"""

from __future__ import annotations

import os
from getpass import getpass

import qrcode
from telethon import TelegramClient, errors

QR_TIMEOUT_SECONDS = 120


def _print_qr(url: str) -> None:
    qr = qrcode.QRCode(border=1)
    qr.add_data(url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


def _second_factor() -> str:
    return os.getenv("2FA") or getpass("2FA password: ")


def _login_method() -> str:
    configured = (os.getenv("LOGIN_METHOD") or "").strip().lower()
    if configured in {"qr", "phone"}:
        return configured

    choices = {"1": "qr", "2": "phone"}
    while True:
        print("")
        print("Login with: [1] QR code  [2] Phone code  [3] Exit")
        choice = input("ghostgate > ").strip()
        if choice == "3":
            raise SystemExit(0)
        if choice in choices:
            return choices[choice]
        print("Please choose 1, 2, or 3.")


async def _login_with_qr(client: TelegramClient) -> None:
    qr_login = await client.qr_login()
    _print_qr(qr_login.url)
    await qr_login.wait(timeout=QR_TIMEOUT_SECONDS)


async def _login_with_phone(client: TelegramClient) -> None:
    phone = os.getenv("PHONE") or input("Phone number (international format): ").strip()
    await client.send_code_request(phone)
    code = input("Login code: ").strip()
    await client.sign_in(phone=phone, code=code)


async def authorize(client: TelegramClient) -> None:
    """Log the client in unless its session is already authorized."""

    if await client.is_user_authorized():
        return

    login = _login_with_phone if _login_method() == "phone" else _login_with_qr
    try:
        await login(client)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=_second_factor())
