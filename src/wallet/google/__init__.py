"""Google Wallet loyalty class/object components."""
