"""Image annotation service with share links and threaded comments."""
