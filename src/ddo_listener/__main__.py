from ddo_listener.cli import main

main()
