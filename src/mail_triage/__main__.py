from mail_triage.cli import main

main()
