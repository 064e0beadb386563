from tadarruj.app import main

main()
