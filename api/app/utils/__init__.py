"""Small helpers shared by routes and repositories."""
