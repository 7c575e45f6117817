"""Browser-side storefront logic: catalog, cart, identities and checkout."""
