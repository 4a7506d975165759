"""maildispatch -- Configuration package."""
