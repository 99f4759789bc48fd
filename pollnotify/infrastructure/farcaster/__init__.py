"""Farcaster API adapters (Neynar)."""
