from cabin.cli import main

main()
