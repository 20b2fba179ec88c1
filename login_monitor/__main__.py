from login_monitor.server import main


raise SystemExit(main())
