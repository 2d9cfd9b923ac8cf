"""HTTP admin API for lead routing."""
