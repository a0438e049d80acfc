"""Module entrypoint for running the rate publisher with shared settings."""

from rate_publisher.services.publisher.main import main

if __name__ == "__main__":
    raise SystemExit(main())
