"""
The entry point for the CLI tool
"""

from aiohttp import web

from psrental.app import build_app


def run():
    """Builds and runs the app."""
    web.run_app(build_app())


if __name__ == '__main__':
    run()
