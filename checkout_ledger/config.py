import os


class Config:
    """Reads ledger service configuration from environment variables."""

    def __init__(self):
        self.ledger_name = os.getenv("LEDGER_NAME", "library")
        self.http_host = os.getenv("HTTP_HOST", "0.0.0.0")
        self.http_port = int(os.getenv("HTTP_PORT", "8080"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

        # upper bound for ?limit= on the chain listing
        self.max_page_size = max(int(os.getenv("MAX_PAGE_SIZE", "500")), 1)


config = Config()
