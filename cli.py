# cli.py - interactive console for the souq API
import os
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.styles import Style as PromptStyle
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from souq_sdk.client import SouqClient

console = Console()
c = SouqClient(
    base_url=os.getenv("SOUQ_URL", "http://127.0.0.1:8085"),
    language=os.getenv("SOUQ_LANG") or None,
)

status_message = "Ready"
product_cache: List[Dict[str, Any]] = []
order_cache: List[Dict[str, Any]] = []

custom_style = PromptStyle.from_dict({
    'completion-menu.completion': 'bg:#008888 #ffffff',
    'completion-menu.completion.current': 'bg:#00aaaa #000000',
    'scrollbar.background': 'bg:#88aaaa',
    'scrollbar.button': 'bg:#222222',
})

STATUSES = ["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]


def _text(value: Any) -> str:
    """Bilingual fields arrive as {en, ar} when no language was requested."""
    if isinstance(value, dict):
        return " / ".join(v for v in (value.get("en"), value.get("ar")) if v) or "N/A"
    return str(value) if value is not None else "N/A"


# ---------------------------
# Display helpers
# ---------------------------
def show_products(products: List[Dict[str, Any]]):
    if not products:
        console.print("[italic yellow]No products found[/italic yellow]")
        return

    table = Table(title="📦 Products", box=box.ROUNDED, header_style="bold cyan",
                  title_style="bold magenta", show_lines=True)
    table.add_column("ID", style="dim", width=12)
    table.add_column("Name", style="bold", width=28)
    table.add_column("SKU", width=14)
    table.add_column("Price", justify="right", width=10)
    table.add_column("Stock", justify="right", width=8)
    table.add_column("Category", width=18)

    for p in products:
        category = p.get("category")
        table.add_row(
            p.get("id", "N/A")[:12],
            _text(p.get("name")),
            p.get("sku", "N/A"),
            f"{p.get('price', 0):.2f}",
            str(p.get("stock", 0)),
            _text(category.get("name")) if isinstance(category, dict) else _text(category),
        )
    console.print(table)


def show_orders(orders: List[Dict[str, Any]]):
    if not orders:
        console.print("[italic yellow]No orders found[/italic yellow]")
        return

    table = Table(title="📋 Orders", box=box.ROUNDED, header_style="bold yellow",
                  title_style="bold yellow", show_lines=True)
    table.add_column("Order number", style="bold", width=22)
    table.add_column("Contents", width=40)
    table.add_column("Status", width=12)
    table.add_column("Total", justify="right", width=10)

    for order in orders:
        items = order.get("items", [])
        names = [f"{_text(it.get('name'))} x{it.get('quantity', 1)}" for it in items[:3]]
        contents = ", ".join(names) or "No items"
        if len(items) > 3:
            contents += f" +{len(items) - 3} more"
        status = order.get("status", "N/A")
        style = {"cancelled": "red", "delivered": "green"}.get(status, "yellow")
        table.add_row(
            order.get("order_number", "N/A"),
            contents,
            f"[{style}]{status}[/{style}]",
            f"{order.get('total_amount', 0):.2f}",
        )
    console.print(table)


def show_status(message: str, is_success: bool = True):
    style = "green" if is_success else "red"
    return Panel.fit(f"[{style}]{message}[/{style}]", title="Status")


def show_result(body: Dict[str, Any], title: str):
    failed = body.get("status") in ("fail", "error")
    text = _text(body.get("error") if failed else body.get("message"))
    if failed and body.get("errors"):
        text += "\n" + "\n".join(_text(e) for e in body["errors"])
    console.print(Panel.fit(f"[{'red' if failed else 'green'}]{text}[/]", title=title))
    return not failed


# ---------------------------
# API wrapper
# ---------------------------
def _error_text(e: requests.RequestException) -> str:
    response = getattr(e, "response", None)
    if response is not None:
        try:
            return _text(response.json().get("error"))
        except ValueError:
            return f"HTTP {response.status_code}"
    return str(e)


def try_api(fn, *args, success_msg: Optional[str] = None, **kwargs):
    """Call fn with a spinner; print and swallow transport/HTTP errors into the status line."""
    global status_message
    try:
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), transient=True) as progress:
            progress.add_task(description="Processing...", total=None)
            result = fn(*args, **kwargs)
        if success_msg:
            status_message = success_msg
            console.print(show_status(success_msg, True))
        return result
    except requests.RequestException as e:
        status_message = f"Error: {_error_text(e)}"
        console.print(show_status(status_message, False))
        return None


# ---------------------------
# Autocompletion helpers
# ---------------------------
def refresh_products():
    global product_cache
    body = try_api(c.list_products, limit=100)
    product_cache = body["data"]["products"] if body else []
    return product_cache


def get_product_completer():
    if not product_cache:
        refresh_products()
    words = [p["id"] for p in product_cache] + [p.get("sku", "") for p in product_cache]
    return WordCompleter([w for w in words if w], ignore_case=True)


def resolve_product_id(value: str) -> str:
    for p in product_cache:
        if value in (p["id"], p.get("sku")):
            return p["id"]
    return value


def get_order_completer():
    return WordCompleter([o["id"] for o in order_cache], ignore_case=True)


def create_header():
    header = Table(show_header=False, box=box.ROUNDED)
    header.add_column("left", width=30)
    header.add_column("center", width=40)
    header.add_column("right", width=30)
    header.add_row(
        "🛍️ souq",
        "[bold blue]Bilingual store console[/bold blue]",
        f"[dim]{datetime.now():%Y-%m-%d %H:%M:%S}[/dim]",
    )
    return Panel(header, style="bold blue")


def prompt_with_autocomplete(message: str, completer=None, default: str = ""):
    return prompt(f"{message} ", completer=completer, style=custom_style, default=default)


def ask_float(message: str, default: float = 10.0) -> float:
    while True:
        raw = Prompt.ask(message, default=str(default))
        try:
            return float(raw)
        except ValueError:
            console.print("[red]Please enter a valid number.[/red]")


# ---------------------------
# Main menu
# ---------------------------
def menu():
    global status_message, order_cache

    console.clear()
    console.print(create_header())

    while True:
        console.print(show_status(status_message, "Error" not in status_message))

        menu_table = Table.grid(padding=(0, 2))
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        options = [
            ("1", "🔑 Log in", "6", "✅ Place order"),
            ("2", "📦 List products", "7", "📋 My orders"),
            ("3", "🔍 Search products", "8", "❌ Cancel order"),
            ("4", "➕ Create product", "9", "🔄 Update order status"),
            ("5", "📊 Adjust stock", "q", "👋 Quit"),
        ]
        for row in options:
            menu_table.add_row(*row)
        console.print(Panel(menu_table, title="📋 Menu", border_style="yellow"))

        choice = prompt_with_autocomplete(
            "\nChoose an option",
            completer=WordCompleter([str(i) for i in range(1, 10)] + ["q", "quit", "exit"]),
        ).strip()

        if choice == "1":
            email = prompt_with_autocomplete("Email")
            password = Prompt.ask("Password", password=True)
            body = try_api(c.login, email, password, success_msg=f"Logged in as {email}")
            if body:
                refresh_products()

        elif choice == "2":
            if refresh_products() is not None:
                show_products(product_cache)

        elif choice == "3":
            term = prompt_with_autocomplete("Search term")
            body = try_api(c.search_products, term, success_msg=f"Search for '{term}' completed")
            if body:
                show_products(body["data"]["products"])

        elif choice == "4":
            name = prompt_with_autocomplete("Name (English)")
            name_ar = prompt_with_autocomplete("Name (Arabic)")
            price = ask_float("💰 Price", default=10.0)
            stock = IntPrompt.ask("📦 Stock", default=1)
            category = prompt_with_autocomplete("🏷️ Category id")
            body = try_api(c.create_product, name, price, stock, category, name_ar=name_ar or None,
                           success_msg=f"Product '{name}' created")
            if body:
                product = body["data"]["product"]
                console.print(Panel(f"Created product [green]{product['id']}[/green] (sku {product['sku']})"))
                refresh_products()

        elif choice == "5":
            pid = resolve_product_id(prompt_with_autocomplete("Product id or sku", completer=get_product_completer()))
            operation = prompt_with_autocomplete("Operation", completer=WordCompleter(["add", "subtract", "set"]),
                                                 default="set")
            amount = IntPrompt.ask("Amount", default=1)
            body = try_api(c.adjust_stock, pid, amount, operation)
            if body and show_result(body, "📊 Stock") and body.get("data"):
                data = body["data"]
                console.print(f"{data['previous_stock']} → [bold]{data['current_stock']}[/bold] ({data['stock_change']})")

        elif choice == "6":
            lines = []
            while True:
                pid = resolve_product_id(prompt_with_autocomplete("Product id or sku (blank to finish)",
                                                                  completer=get_product_completer()).strip())
                if not pid:
                    break
                lines.append({"product": pid, "quantity": IntPrompt.ask("Quantity", default=1)})
            if not lines:
                continue
            address = {"street": Prompt.ask("Street"), "city": Prompt.ask("City")}
            body = try_api(c.place_order, lines, address)
            if body and show_result(body, "✅ Order") and body.get("data"):
                order = body["data"]["order"]
                console.print(Panel.fit(
                    f"Order number: [bold]{order['order_number']}[/bold]\n"
                    f"Total: [bold]{order['total_amount']:.2f}[/bold]",
                    title="✅ Order Confirmation",
                ))

        elif choice == "7":
            body = try_api(c.list_orders, success_msg="Orders loaded")
            if body:
                order_cache = body["data"]["orders"]
                show_orders(order_cache)

        elif choice == "8":
            oid = prompt_with_autocomplete("Order id", completer=get_order_completer())
            body = try_api(c.cancel_order, oid)
            if body:
                show_result(body, "❌ Cancel")

        elif choice == "9":
            oid = prompt_with_autocomplete("Order id", completer=get_order_completer())
            status = prompt_with_autocomplete("New status", completer=WordCompleter(STATUSES))
            body = try_api(c.update_order_status, oid, status)
            if body:
                show_result(body, "🔄 Status")

        elif choice.lower() in ("q", "quit", "exit"):
            if Confirm.ask("Are you sure you want to quit?"):
                console.print(Panel.fit("[bold green]Goodbye! مع السلامة 👋[/bold green]", title="Goodbye"))
                sys.exit(0)

        console.print()
        console.rule(style="dim")


if __name__ == "__main__":
    try:
        menu()
    except KeyboardInterrupt:
        console.print("\n\n[bold red]Interrupted by user[/bold red]")
        sys.exit(1)
