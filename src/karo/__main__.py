from karo.cli import main

main()
