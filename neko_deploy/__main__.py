from neko_deploy.uploader import main

main()
