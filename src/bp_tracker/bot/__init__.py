"""Chat bot commands for recording and reviewing readings."""
