"""
Encrypted Marginal Price Auction (EMPA)

A sealed-bid batch auction settlement engine:
- ECIES bid encryption on alt_bn128
- Price-ordered priority queues with insertion hints
- Resumable decryption and marginal price settlement
"""
