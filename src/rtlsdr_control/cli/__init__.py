"""Command line interface for RTLSDR Control."""
