"""
Command Line Application Package

Contains the `pricefeed` command line client, the terminal stand-in for the
display layer: quotes, cache statistics, benchmarks, the stats stream and
upstream status probes.
"""
