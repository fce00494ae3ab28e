def sales_summary(orders, catalog) -> dict:
    """Order count, revenue, product counts and per-month sales (ascending)."""
    all_orders = orders.find_all()

    monthly = {}
    for order in all_orders:
        if order.created_at is None:
            continue
        month = order.created_at.strftime("%Y-%m")
        bucket = monthly.setdefault(month, {"month": month, "totalSales": 0, "totalOrders": 0})
        bucket["totalSales"] += order.total_price
        bucket["totalOrders"] += 1

    return {
        "totalOrders": len(all_orders),
        "totalSales": sum(order.total_price for order in all_orders),
        "totalProducts": catalog.count_products(),
        "trendingProducts": sum(1 for product in catalog.list_products() if product.trending),
        "monthlySales": [monthly[month] for month in sorted(monthly)],
    }
