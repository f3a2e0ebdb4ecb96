"""MiniSearch server: access gate, circuit breaker and the endpoints behind them."""
