from . import dashboard, quote_history, quotes, rates, settings

__all__ = [
	"dashboard",
	"settings",
	"rates",
	"quotes",
	"quote_history",
]
