from componentmgr.cli import main

main()
