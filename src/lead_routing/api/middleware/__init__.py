"""Request authentication."""
