from ripsfold.cli import main

main()
