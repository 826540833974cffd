"""Package entry point for ``python -m caption_burner``.

WHY: Users run the tool as ``python -m caption_burner <command>`` without
installing the console script.

HOW: Delegates to the CLI's main() function.
"""

if __name__ == "__main__":
    from caption_burner.cli import main
    main()
