"""Run with: python -m model_salvage"""

from model_salvage.cli import main

main()
