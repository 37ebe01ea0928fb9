"""Unit tests and testing tools for the acme_appgw package."""

TEST_DOMAINS = ["example.com", "*.example.com"]
TEST_EMAIL = "admin@example.com"
TEST_ZONE = "example.com"
TEST_DIRECTORY = "https://acme.test/directory"
TEST_PASSWORD = "correct horse battery staple"
