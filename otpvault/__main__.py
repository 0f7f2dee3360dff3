from otpvault.cli import main

main()
