"""Object store cache for build folder snapshots."""
