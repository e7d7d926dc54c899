# -*- coding: utf-8 -*-

# SongBridge
# Copyright (C) 2025 SongBridge contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
SongBridge - links a Spotify account and a Kick channel so chat can queue songs.

Application entry point.

Usage:
    # Save app credentials, then authorize in the browser
    python main.py set-credentials spotify
    python main.py login spotify

    # Show connection state
    python main.py status

    # With environment variables
    LOG_LEVEL=DEBUG python main.py status

Configuration is read from the environment and from a .env file in the
working directory (see songbridge/config.py).
"""

from songbridge.cli import main


if __name__ == "__main__":
    main()
