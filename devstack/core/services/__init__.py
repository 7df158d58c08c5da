"""Domain services — patch rules, profile blocks, service catalog, database bootstrap."""
