"""Apple Wallet: pass bundles, manifest signing and APNs update pushes."""
