from reftask.cli import main

main()
