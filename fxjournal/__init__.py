"""FX trade journal: P/L calculator, portfolio statistics and a FastAPI front end."""

__version__ = "1.0.0"
