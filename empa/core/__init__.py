"""Core auction engine: configuration, queues, auctions and storage."""
