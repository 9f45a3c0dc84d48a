from ovadeploy import cli

raise SystemExit(cli.main())
