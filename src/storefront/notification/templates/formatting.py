from html import escape


def money(amount_minor: int | None, currency: str = "CZK") -> str:
    amount = (amount_minor or 0) / 100
    return f"{amount:,.2f} {currency}".replace(",", " ")


def greeting(name: str | None) -> str:
    return f"Hello {escape(name)}," if name else "Hello,"


def item_rows(items: list[dict], currency: str) -> str:
    rows = []
    for item in items:
        size = f" ({escape(item['size'])})" if item.get("size") else ""
        rows.append(
            f"<tr><td>{escape(item.get('name') or item['product_id'])}{size}</td>"
            f"<td>{item['quantity']}×</td>"
            f"<td>{money(item['unit_price'] * item['quantity'], currency)}</td></tr>"
        )
    return "<table>" + "".join(rows) + "</table>"
