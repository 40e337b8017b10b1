"""
Paper-trading engine: synthetic fills, position netting and account roll-ups.

Pure pricing lives in `fills`, position arithmetic in `ledger`, the
transactional order flows in `execution` and read-side summaries in
`reports`.
"""
