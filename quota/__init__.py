"""Credit quota: authenticated balances, guest allowance, display model."""
