from stmq.mothership import main

main()
