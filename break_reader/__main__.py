from break_reader.app import main

if __name__ == "__main__":
    main()
