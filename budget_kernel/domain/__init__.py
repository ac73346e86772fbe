"""Pure domain helpers shared by every module: clocks and currencies."""
