"""Launch the camlink desktop client."""

from __future__ import annotations

import argparse
from typing import List, Optional

from camlink.ui.main_window import main


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send the local camera to a WebRTC /offer endpoint.")
    parser.add_argument("--url", help="Base URL of the signaling server (overrides the saved setting).")
    parser.add_argument("--audio", action="store_true", default=None, help="Also send the microphone.")
    parser.add_argument("--no-video", dest="video", action="store_false", default=None, help="Do not send the camera.")
    parser.add_argument("--debug", action="store_true", help="Log ICE and signaling state changes.")
    parser.add_argument("--autostart", action="store_true", help="Start the session right after launch.")
    return parser.parse_args(argv)


def run(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    main(
        signaling_url=args.url,
        audio=args.audio,
        video=args.video,
        debug=args.debug,
        autostart=args.autostart,
    )


if __name__ == "__main__":
    run()
