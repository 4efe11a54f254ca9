"""Run the mcoa-addon command line tool."""

from .tool.mcoa_addon import main

main()
