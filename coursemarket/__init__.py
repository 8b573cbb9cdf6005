"""Course Marketplace API."""
