"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module runs the CLI for 'python -m primalpair'.
"""

from primalpair.cli import main

if __name__ == "__main__":
    main()
