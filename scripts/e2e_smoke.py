#!/usr/bin/env python3
"""
Bookstore E2E smoke tests against a running service.

Run:
  python scripts/e2e_smoke.py

Optional env:
  BOOKSTORE_BASE=http://localhost:8000
  OWNER_EMAIL=admin@local
  OWNER_PASSWORD=default
  DEBUG=1
"""

from __future__ import annotations

import os
import random
import sys
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests


# =========================
# Simple CLI UI (ANSI)
# =========================

class Style:
    RESET = "\033[0m"
    BOLD = "\033[1m"

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"

    BOX_LINE = "─"
    BOX_VERT = "│"
    BOX_TL = "┌"
    BOX_TR = "┐"
    BOX_BL = "└"
    BOX_BR = "┘"


def boxed(text: str, color: str):
    line = Style.BOX_LINE * (len(text) + 2)
    print(f"\n{color}{Style.BOX_TL}{line}{Style.BOX_TR}{Style.RESET}")
    print(f"{color}{Style.BOX_VERT} {Style.BOLD}{text}{Style.RESET}{color} {Style.BOX_VERT}{Style.RESET}")
    print(f"{color}{Style.BOX_BL}{line}{Style.BOX_BR}{Style.RESET}")


def info(msg: str):
    print(f"{Style.CYAN}ℹ {msg}{Style.RESET}")


def ok(msg: str):
    print(f"{Style.GREEN}✔ {msg}{Style.RESET}")


def fail(msg: str):
    print(f"{Style.RED}✘ {msg}{Style.RESET}")


# =========================
# Config
# =========================

BASE = os.getenv("BOOKSTORE_BASE", "http://localhost:8000")
OWNER_EMAIL = os.getenv("OWNER_EMAIL", "admin@local")
OWNER_PASSWORD = os.getenv("OWNER_PASSWORD", "default")
DEBUG = os.getenv("DEBUG", "0").strip() in {"1", "true", "True", "YES", "yes"}

INITIAL_STOCK = 5


def debug(msg: str):
    if DEBUG:
        print(f"{Style.GRAY}… {msg}{Style.RESET}")


@dataclass
class TestResult:
    name: str
    success: bool
    details: str = ""


# =========================
# HTTP helpers
# =========================

def http(method: str, path: str, token: Optional[str] = None, **kwargs) -> requests.Response:
    kwargs.setdefault("timeout", 8)
    if token:
        kwargs.setdefault("headers", {})["X-Session-Token"] = token
    debug(f"{method} {path} json={kwargs.get('json')}")
    return requests.request(method, BASE + path, **kwargs)


def expect(resp: requests.Response, expected: int, ctx: str) -> Dict[str, Any]:
    if resp.status_code != expected:
        raise AssertionError(f"{ctx}: expected HTTP {expected}, got {resp.status_code}, body={resp.text}")
    return resp.json()


def address(street: str) -> Dict[str, str]:
    return {"street_address": street, "postal_code": "K1A 0B1", "province": "ON"}


# =========================
# Steps
# =========================

def seed_book(isbn: int) -> None:
    owner = expect(
        http("POST", "/owner/login", json={"email": OWNER_EMAIL, "password": OWNER_PASSWORD}),
        200, "owner login",
    )["token"]
    publisher_id = expect(http("POST", "/owner/publishers", owner, json={
        "company_name": f"E2E Press {isbn}",
        "email": "e2e@press.example",
        "address": address("1 Publisher Way"),
        "phone_number": "555-0100",
        "bank_number": "0001",
    }), 201, "create publisher")["publisher_id"]
    expect(http("POST", "/owner/books", owner, json={
        "isbn": isbn, "title": f"E2E Book {isbn}", "author_name": "E. Tester", "genre": "Testing",
        "publisher_id": publisher_id, "num_pages": 100, "price": "10.00",
        "author_royalties": "0.10", "reorder_threshold": 1, "stock": INITIAL_STOCK,
    }), 201, "create book")
    info(f"Seeded ISBN {isbn} with stock {INITIAL_STOCK}")


def register_customer() -> str:
    email = f"e2e-{uuid.uuid4().hex[:8]}@example.com"
    expect(http("POST", "/register", json={
        "email": email,
        "name": "E2E Customer",
        "password": "e2e-password",
        "address": address("2 Customer St"),
        "payment_info": {
            "name_on_card": "E2E Customer",
            "expiry": "12/30",
            "card_number": "4111111111111111",
            "cvv": "321",
            "billing_address": address("2 Customer St"),
        },
    }), 201, "register")
    return expect(
        http("POST", "/login", json={"email": email, "password": "e2e-password"}), 200, "login"
    )["token"]


def stock_of(isbn: int) -> int:
    return expect(http("GET", f"/books/{isbn}"), 200, f"GET book {isbn}")["stock"]


# =========================
# Scenarios
# =========================

def scenario_happy_path(isbn: int) -> TestResult:
    boxed("Scenario 1 - Checkout", Style.BLUE)
    try:
        token = register_customer()
        expect(http("PUT", f"/customer/cart/add/{isbn}", token), 200, "add to cart")
        expect(http("PUT", f"/customer/cart/quantity/{isbn}/4", token), 200, "set quantity")
        if stock_of(isbn) != INITIAL_STOCK:
            return TestResult("Checkout", False, "Stock changed before the order was placed")

        order_id = expect(http("POST", "/orders", token, json={}), 201, "create order")["order_id"]
        info(f"Order {order_id} created")

        remaining = stock_of(isbn)
        cart = expect(http("GET", "/customer/cart", token), 200, "get cart")
        order = expect(http("GET", f"/orders/{order_id}", token), 200, "get order")
        success = remaining == INITIAL_STOCK - 4 and cart == [] and order["order_status"] == "PR"
        msg = f"stock={remaining}, cart={cart}, status={order['order_status']}"
        (ok if success else fail)(msg)
        return TestResult("Checkout", success, msg)
    except Exception as e:
        fail(f"Exception during checkout: {e}")
        return TestResult("Checkout", False, str(e))


def scenario_insufficient_stock(isbn: int) -> TestResult:
    boxed("Scenario 2 - Insufficient Stock", Style.BLUE)
    try:
        token = register_customer()
        before = stock_of(isbn)
        resp = http("PUT", f"/customer/cart/quantity/{isbn}/{before}", token)
        after = stock_of(isbn)
        success = resp.status_code == 409 and before == after
        msg = f"HTTP {resp.status_code}, stock {before} -> {after}"
        (ok if success else fail)(msg)
        return TestResult("Insufficient Stock", success, msg)
    except Exception as e:
        fail(f"Exception during insufficient stock scenario: {e}")
        return TestResult("Insufficient Stock", False, str(e))


def summary(results: List[TestResult]) -> bool:
    boxed("Summary", Style.CYAN)
    for r in results:
        mark = f"{Style.GREEN}PASS{Style.RESET}" if r.success else f"{Style.RED}FAIL{Style.RESET}"
        print(f"  {mark} {r.name}: {r.details}")
    return all(r.success for r in results)


def main() -> int:
    boxed(" Bookstore E2E Smoke Tests ", Style.CYAN)
    try:
        expect(http("GET", "/"), 200, "health check")
    except Exception as e:
        fail(f"Bookstore at {BASE} is not reachable: {e}")
        return 1

    isbn = random.randint(10_000_000, 99_999_999)
    try:
        seed_book(isbn)
    except Exception as e:
        fail(f"Could not seed the catalog: {e}")
        return 1

    results = [scenario_happy_path(isbn), scenario_insufficient_stock(isbn)]
    return 0 if summary(results) else 1


if __name__ == "__main__":
    sys.exit(main())
