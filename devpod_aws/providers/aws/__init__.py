"""AWS EC2 provider."""
