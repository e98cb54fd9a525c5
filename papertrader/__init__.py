"""Paper-trading simulator core.

This package contains the building blocks of a simulated crypto trading session:

- market_data: price store (bounded per-symbol history) and the Binance feed
- portfolio: cash/asset ledger with average entry price tracking
- execution: order book (fill history), simulated broker and the execution engine
- automation: periodic decision loop, sizing rules and advisory log
- ai: decision policies (model-driven and rule-based)
- session: wiring of all of the above plus the command-line entry point

Everything is in-memory for the lifetime of the process.
"""
