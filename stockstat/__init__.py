"""StockStat - technical indicator statistics for daily stock quotes."""

__version__ = "0.1.0"
