if __name__ == "__main__":
    try:
        from lnd_beacon.app import run
        run()
    except ModuleNotFoundError as e:
        if "textual" in str(e) or "rich" in str(e):
            import sys
            print("Missing dependency. Install from project root: pip install .", file=sys.stderr)
            sys.exit(1)
        raise
