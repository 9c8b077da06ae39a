"""Origin-aware tariff rate lookup."""
