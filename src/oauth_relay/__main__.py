from oauth_relay import main

main()
