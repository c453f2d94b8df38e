"""Belgian CODA bank statement codec."""
