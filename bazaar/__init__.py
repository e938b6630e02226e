"""
Instant Bazaar: vendors, wallets and trade processing for tabletop games.
"""
