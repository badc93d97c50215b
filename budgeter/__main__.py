from budgeter.main import main

main()
