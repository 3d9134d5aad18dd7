from CloudPost.cli import main

main()
