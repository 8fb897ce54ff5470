"""HTTP access to the fulfillment provider: client, throttling, paging, record schemas."""
