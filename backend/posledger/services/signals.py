# Overview: Domain signals emitted by the stock core; listeners subscribe with blinker.

from blinker import Namespace

_signals = Namespace()

# Sent after commit when a product's stock first drops to or below its minimum.
# Receivers get sender=Product id and keyword args: product_name, previous_stock,
# current_stock, minimum_stock.
low_stock_reached = _signals.signal("low-stock-reached")
