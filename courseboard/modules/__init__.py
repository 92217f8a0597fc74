"""Feature modules: catalog contracts, the leaderboard, and shared foundations."""
