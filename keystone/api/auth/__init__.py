"""Authentication: password hashing, JWT handling and refresh sessions."""
