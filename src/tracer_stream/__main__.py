from tracer_stream.server.app.stream_server import main

if __name__ == "__main__":
    main()
